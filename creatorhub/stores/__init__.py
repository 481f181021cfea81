"""Data-access stores.

Each store wraps one table family and receives the SQLAlchemy Session in
its constructor. Stores never check ownership or validate input; that is
the service layer's job (creatorhub/services/).
"""
