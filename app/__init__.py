from .orchestrator import Orchestrator, TickReport, ItemResult

__all__ = ["Orchestrator", "TickReport", "ItemResult"]
