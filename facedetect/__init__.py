"""
Face Detection System

A Python face detection and recognition system built on a hand-written
pipeline: Histogram of Oriented Gradients (HOG) features, kernel Support
Vector Machines trained with Sequential Minimal Optimization (SMO), and a
multi-scale sliding-window detector with Non-Maximum Suppression.

This package contains modules for feature extraction, SVM training and
inference, face detection, identity recognition and accuracy evaluation.
"""

__version__ = '1.0.0'
