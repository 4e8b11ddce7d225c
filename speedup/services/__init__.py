from speedup.services.resources import ResourceLifecycleManager

__all__ = ["ResourceLifecycleManager"]
