"""termpanel command line interface"""
