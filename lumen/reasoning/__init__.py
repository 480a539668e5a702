"""
Reasoning Module

LLM access for the knowledge pipeline.
"""
