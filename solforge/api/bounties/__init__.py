"""Bounty creation, submission, status and cancellation endpoints."""
