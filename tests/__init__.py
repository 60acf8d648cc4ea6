"""Test package for the meeting tracker."""
