"""
Building blocks shared by the hub and endpoints: event sources, value-object mixins,
response futures and the scheduler that gives the protocol its single logical thread.
"""
