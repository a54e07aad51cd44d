from .viewer_fsm import ViewerFSM

__all__ = ["ViewerFSM"]
