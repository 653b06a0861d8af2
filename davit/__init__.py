"""Safe Kubernetes deployment wrapper"""

__version__ = "0.1.0"
