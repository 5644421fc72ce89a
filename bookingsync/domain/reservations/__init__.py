"""Reservations domain - booking lifecycle and capacity"""
