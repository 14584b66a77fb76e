"""
mailsieve

A rule-based email classification and priority-scoring engine. Ordered
condition/action rules route, label and flag messages, a weighted model
ranks them by urgency, and a learner proposes new rules from user feedback.
"""

__version__ = "1.0.0"
__app_name__ = "mailsieve"
