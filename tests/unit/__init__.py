"""
docharness unit tests

These run without a database: driver and Docker objects are replaced with
unittest.mock stand-ins.
"""
