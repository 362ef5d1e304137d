##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

# commandline options shared by the example tools: credentials (including obfuscated saved credentials),
# logging levels, caching and certificate checking

import getpass
import json
import os
import socket

import cryptography.exceptions
import cryptography.fernet

from oslcclient import server
from oslcclient import utils

def add_common_arguments(parser, *, urlname, urldefault, urlhelp):
    USER        = os.environ.get("QUERY_USER"       ,None )
    PASSWORD    = os.environ.get("QUERY_PASSWORD"   ,None )
    LOGLEVEL    = os.environ.get("QUERY_LOGLEVEL"   ,None )

    parser.add_argument('-J', f'--{urlname}', default=urldefault, help=urlhelp)
    parser.add_argument('-U', '--username', default=USER, help='User id - can be set using environment variable QUERY_USER')
    parser.add_argument('-P', '--password', default=PASSWORD, help='User password - can be set using environment variable QUERY_PASSWORD - if not given you are prompted')
    parser.add_argument('-C', '--configuration', default=None, help='Configuration context URI sent as the Configuration-Context header')
    parser.add_argument('-L', '--loglevel', default=LOGLEVEL, help=f'Set logging on console and (if providing a , and a second level) to file to one of {", ".join(utils.loglevels)} - default is {LOGLEVEL} - can be set by environment variable QUERY_LOGLEVEL')
    parser.add_argument('-W', '--cachecontrol', action='count', default=0, help="Used once -W erases cache then continues with caching enabled. Used twice -WW wipes cache and disables caching. Default is no caching.")
    parser.add_argument('--nocertcheck', action="store_true", help="Don't check server SSL certificates")
    parser.add_argument('-0', '--savecreds', default=None, help="Save obfuscated credentials file for use with readcreds, then exit - this stores the server url, username and password")
    parser.add_argument('-1', '--readcreds', default=None, help="Read obfuscated credentials from file - completely overrides commandline/environment values for server url, username and password" )
    parser.add_argument('-2', '--erasecreds', default=None, help="Wipe and delete obfuscated credentials file" )
    parser.add_argument('-3', '--secret', default="N0tSeCret-", help="SECRET used to encrypt and decrypt the obfuscated credentials (make this longer for greater security)" )
    parser.add_argument('-4', '--credspassword', action="store_true", help="Prompt user for a password to save/read obfuscated credentials (make this longer for greater security)" )

def _creds_key(args, credsfile, credspassword):
    return "=-=".join([socket.getfqdn(), os.path.abspath(credsfile), os.getcwd(), getpass.getuser(), args.secret, credspassword])

def process_common_arguments(args, urlname):
    '''
    Handle credentials files and logging. Returns False if the tool has nothing more to do
    (credentials were saved or erased).
    '''
    if args.erasecreds:
        contentlen = len(open(args.erasecreds, "rb").read())
        # overwrite with same-length random data before deleting
        for i in range(5):
            with open(args.erasecreds, "w+b") as f:
                f.write(os.urandom(contentlen))
        os.remove(args.erasecreds)
        print( f"Credentials file {args.erasecreds} overwritten then removed" )
        return False

    if args.credspassword:
        if args.readcreds is None and args.savecreds is None:
            raise ValueError( "When using -4 you must use -0 to specify a file to save credentials into, and/or -1 to specify a credentials file to read" )
        credspassword = ""
        while len(credspassword) < 1:
            credspassword = getpass.getpass( "Password (>0 chars, longer is more secure)?" )
    else:
        credspassword = "N0tSecretAtAll"

    if args.readcreds:
        try:
            with open(args.readcreds, "rb") as f:
                username, password, url = json.loads( utils.fernet_decrypt(f.read(), _creds_key(args, args.readcreds, credspassword)) )
        except (cryptography.exceptions.InvalidSignature, cryptography.fernet.InvalidToken, TypeError) as e:
            raise ValueError( f"Unable to decrypt credentials from {args.readcreds}" ) from e
        args.username, args.password = username, password
        setattr(args, urlname, url)
        print( f"Credentials file {args.readcreds} read" )

    if args.savecreds:
        with open(args.savecreds, "wb") as f:
            f.write( utils.fernet_encrypt(json.dumps([args.username, args.password, getattr(args, urlname)]).encode(), _creds_key(args, args.savecreds, credspassword), utils.ITERATIONS) )
        print( f"Credentials file {args.savecreds} created" )
        return False

    if args.loglevel is not None:
        consolelevel, filelevel = utils.parse_loglevels(args.loglevel)
        utils.setup_logging(consolelevel=consolelevel, filelevel=filelevel)

    if args.username and args.password is None:
        args.password = getpass.getpass(prompt=f'Password for user {args.username}: ')

    # if a debugging proxy is running locally, use it
    server.setupproxy(getattr(args, urlname))
    return True

def transport_arguments(args):
    return {
        'verifysslcerts': not args.nocertcheck,
        # default to no caching; -W and -WW give 1 and 2
        'cachingcontrol': args.cachecontrol if args.cachecontrol else 2,
    }
