"""
Book catalog: records, validation rules, storage adapters and the service
that ties them together.
"""
