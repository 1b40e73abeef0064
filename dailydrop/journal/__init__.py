"""
DailyDrop journal module - users, daily questions, drops and coach conversations.
"""
