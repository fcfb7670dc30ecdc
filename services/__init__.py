"""
services/ - Business Logic Layer
================================
Domain services. Each write runs through the TransactionManager so that a
request's storage calls commit or roll back together.
"""
