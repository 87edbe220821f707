"""Piece-rate payroll and NZ labour compliance."""
