pytest_plugins = ("docharness.pytest_plugin", "pytester")
