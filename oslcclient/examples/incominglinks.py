##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

#######################################################################################################
#
# find the links pointing at one or more resources, optionally shown as the inverse (outgoing) links
#

import argparse
import csv
import logging
import os
import sys

from oslcclient import exceptions
from oslcclient import ldm
from oslcclient.examples import _cli

logger = logging.getLogger(__name__)

def do_incoming_links(inputargs=None):
    inputargs = inputargs or sys.argv[1:]

    LDMURL      = os.environ.get("QUERY_LDMURL"     ,"https://jazz.ibm.com:9443/ldx" )

    parser = argparse.ArgumentParser(description="Find incoming links to resources using a Link Discovery Management server or LQE")
    _cli.add_common_arguments(parser, urlname='ldmurl', urldefault=LDMURL,
                                urlhelp=f"LDM server base URL (containing /lqe for an LQE SPARQL endpoint) - default {LDMURL} - can be set using environment variable QUERY_LDMURL")
    parser.add_argument('targets', nargs='+', help='URLs of the resources to find incoming links for')
    parser.add_argument('-t', '--linktype', action='append', default=[], help='Only find links of this type (full URI) - you can specify this option more than once')
    parser.add_argument('-i', '--invert', action="store_true", help='Show each link from the target to the source using the inverse link type')
    parser.add_argument('-O', '--outputfile', default=None, help='Name of the CSV file to save the links to - default prints them')

    args = parser.parse_args(inputargs)

    if not _cli.process_common_arguments(args, 'ldmurl'):
        return 0

    ldmclient = ldm.LDMClient(args.ldmurl, args.username, args.password, args.configuration, **_cli.transport_arguments(args))
    links = ldmclient.get_incoming_links(args.targets, args.linktype)
    if args.invert:
        links = ldmclient.invert(links)
        heading = ['target', 'inverse link type', 'source']
    else:
        heading = ['source', 'link type', 'target']

    if args.outputfile:
        with open(args.outputfile, "w", newline='', encoding='utf-8') as csvfile:
            writer = csv.writer(csvfile)
            writer.writerow(heading)
            writer.writerows(links)
        print( f"Saved {len(links)} links to {args.outputfile}" )
    else:
        for link in links:
            print( " ".join(link) )
        print( f"{len(links)} links" )
    return 0

def main():
    try:
        return do_incoming_links()
    except (exceptions.OSLCError, ValueError) as e:
        logger.error( f"incominglinks failed: {e}" )
        print( f"Error: {e}", file=sys.stderr )
        return 1

if __name__ == '__main__':
    sys.exit(main())
