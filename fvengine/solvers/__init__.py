from .outer_loop import LoopState, OuterCorrectorLoop, OuterLoopResult

__all__ = ["LoopState", "OuterCorrectorLoop", "OuterLoopResult"]
