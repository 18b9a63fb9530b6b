"""
Test suite for Book A Smile.

Contains unit tests for the scheduling services and API tests for the routers.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
