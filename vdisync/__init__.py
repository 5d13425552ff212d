"""Differential chunk sync of large disk images to an rclone remote"""

__version__ = "1.0.0"
