############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# __init__.py: Database package initialization and exports
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Database package for the LAB Chain directory."""

from backend.app.db.base import Base
from backend.app.db.session import Database, get_async_db, get_database

__all__ = ["Base", "Database", "get_async_db", "get_database"]
