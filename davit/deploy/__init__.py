"""Deployment orchestration engine"""
