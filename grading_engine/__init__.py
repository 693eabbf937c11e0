"""
grading_engine
Rubric-based grading engine: rubric store, score calculator,
grading workflow and grading statistics.
"""
__version__ = "1.0.0"
