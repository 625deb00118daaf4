"""Review editor: the draft/submit state machine and its routes."""
