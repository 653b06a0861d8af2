"""Core infrastructure: logging, configuration, errors, kubectl"""
