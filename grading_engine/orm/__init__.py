from .base import Base

# Rubric Store
from .grading_rubric import GradingRubric

# Grading Workflow
from .submission import Submission, GradingStatus
