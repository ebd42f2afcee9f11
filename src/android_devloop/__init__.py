"""android-devloop - interactive build, install and launch loop for Android projects."""

__version__ = "0.1.0"
