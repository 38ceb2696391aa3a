"""
hfmd: a resumable, concurrent downloader for Hugging Face model and dataset
repositories.
"""

__version__ = "0.4.0"
