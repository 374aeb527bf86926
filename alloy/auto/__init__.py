"""Auto: the approval and payment execution pipeline."""
