"""Terminal front end"""
