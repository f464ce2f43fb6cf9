"""
API Layer for the Classroom Attendance System

This package provides the FastAPI-based API layer that exposes:
- REST endpoints for enrolling students from a portrait photo
- REST endpoints for taking attendance from a group photo and querying the log
- Health check and static serving of uploaded photos

The API layer connects the web frontend to the core attendance engine.

Author: CS-1
"""
