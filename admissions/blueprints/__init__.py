"""
Admissions Workflow Service
Blueprint registry.
"""
