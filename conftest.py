pytest_plugins = ["npmstats.testing.conftest"]
