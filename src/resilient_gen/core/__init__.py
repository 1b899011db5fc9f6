"""Core types and exceptions shared by every stage of the resilience layer."""
