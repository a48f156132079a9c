from .intake_fsm import SYSTEM_TRIGGERS, IntakeFSM


__all__ = ["IntakeFSM", "SYSTEM_TRIGGERS"]
