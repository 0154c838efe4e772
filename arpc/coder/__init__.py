"""Message coders: appended values, gzip compression and msgpack bodies."""