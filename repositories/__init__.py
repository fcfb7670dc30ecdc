"""
repositories/ - Data Access Layer
==================================
One repository per domain entity. Each translates its find-params into a
QueryFilter and delegates persistence to a GenericStorage bound to its table.
"""
