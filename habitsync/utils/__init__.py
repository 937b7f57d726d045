"""Shared utilities: configuration, logging, errors and crypto"""
