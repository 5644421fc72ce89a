"""Email domain - templates, scheduled notifications and send logs"""
