"""Interfaces/abstracciones del Core.

Define contratos (Protocol) que implementan los adaptadores concretos; el Core
depende de abstracciones.
"""
