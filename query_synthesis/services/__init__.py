"""Adapters for external collaborators and the inner query service"""
