from grading_engine.state_machines.grading_status import GradingStateMachine

__all__ = ["GradingStateMachine"]
