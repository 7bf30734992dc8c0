"""
docharness integration tests

This suite runs against a live MongoDB instance started by the docharness
pytest plugin (a Docker container by default). Every test gets a freshly
dropped collection, so the tests can run in any order.

Port: 27117 (to avoid conflicts with local MongoDB)
"""
