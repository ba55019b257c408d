__app_name__ = "latencyboard"
__version__ = "1.0.0"
