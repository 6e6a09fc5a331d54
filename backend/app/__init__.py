############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# __init__.py: Application package initialization
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""LAB Chain directory application package."""

from backend import __version__

__all__ = ["__version__"]
