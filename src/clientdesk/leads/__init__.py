"""Lead intake and scoring."""
