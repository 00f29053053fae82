"""Quote Engine - Services"""
