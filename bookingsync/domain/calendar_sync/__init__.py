"""Calendar sync domain - per-tenant external calendar connection"""
