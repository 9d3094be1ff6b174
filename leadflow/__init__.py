"""LeadFlow - multi-tenant lead automation workflow engine."""

__version__ = "1.0.0"
