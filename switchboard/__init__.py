"""LLM Switchboard

A provider-agnostic gateway that routes chat requests across LLM vendors.
"""

from importlib.metadata import PackageNotFoundError, version

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

try:
    __version__ = version("llm-switchboard")
except PackageNotFoundError:
    __version__ = "0.1.0"
__author__ = "LLM Switchboard"
