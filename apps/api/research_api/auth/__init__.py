"""Supabase session authentication."""
