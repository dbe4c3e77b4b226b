"""
Client for the hotline QA evaluation API.
"""
