"""Application package for the Leveled Exam Portal."""
