"""LLM prompt templates"""
