"""
Ticket Infrastructure Layer
===========================

- models: categories, subcategories, category fields and tickets
- repositories: SQLAlchemy ticket repository
"""
