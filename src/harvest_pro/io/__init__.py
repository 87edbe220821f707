"""Payroll and triage exports."""
