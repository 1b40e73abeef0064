"""
DailyDrop analysis module - periodic AI analyses of a user's journal drops.

Pipeline: eligibility -> aggregation -> LLM invocation -> response parsing -> persistence.
"""
