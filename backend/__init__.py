############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# __init__.py: Root package initialization and version definition
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""LAB Chain directory - node listings, submissions and faucet requests."""

__version__ = "0.3.0"
