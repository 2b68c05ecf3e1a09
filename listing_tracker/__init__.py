"""Marketplace listing tracker."""
