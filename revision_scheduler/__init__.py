"""
Revision Scheduler - exam-aware spaced repetition.

Decides when and in what order a learner revisits each revision item
before a fixed exam date.
"""

__version__ = "1.0.0"
