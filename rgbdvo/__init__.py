"""Feature-based RGB-D visual odometry: rigid transforms, camera model, ORB features, PnP and pose tracking."""

__version__ = "0.4.0"