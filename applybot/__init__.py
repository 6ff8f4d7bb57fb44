"""Application-submission automation for job-discovery surfaces and ATS sites."""

__version__ = "0.1.0"
