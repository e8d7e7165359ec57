PEERKEY_VERSION = '0.1.0'    # version of the peerkey package
