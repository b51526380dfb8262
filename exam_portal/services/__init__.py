"""Business logic for the exam submission pipeline."""
