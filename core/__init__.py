"""
Configuration, invocation context, errors, logging setup and the submission runner.
"""
