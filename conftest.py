collect_ignore = ["setup.py"]

pytest_plugins = ["irclink.fixtures"]
