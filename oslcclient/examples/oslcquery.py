##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

#######################################################################################################
#
# OSLC query against a service provider, results to CSV or Turtle
#

import argparse
import csv
import logging
import os
import sys

from oslcclient import client
from oslcclient import exceptions
from oslcclient.examples import _cli

logger = logging.getLogger(__name__)

############################################################################

def results_to_rows(resources, prefixes):
    rows = []
    columns = ['$uri']
    for resource in resources:
        row = {'$uri': resource.get_uri()}
        for predicate, value in resource.get_properties().items():
            column = prefixes.compact(predicate)
            if column not in columns:
                columns.append(column)
            row[column] = "\n".join(value) if isinstance(value, list) else value
        rows.append(row)
    return rows, columns

def do_oslc_query(inputargs=None):
    inputargs = inputargs or sys.argv[1:]

    # get some defaults from the environment (which can be overridden on the commandline or the saved obfuscated credentials)
    JAZZURL     = os.environ.get("QUERY_JAZZURL"    ,"https://jazz.ibm.com:9443/ccm" )
    PROJECT     = os.environ.get("QUERY_PROJECT"    ,None )

    parser = argparse.ArgumentParser(description="Perform an OSLC query on a service provider, with results output to CSV or Turtle - use -h to get some basic help")
    _cli.add_common_arguments(parser, urlname='jazzurl', urldefault=JAZZURL,
                                urlhelp=f"Application URL, the parent of /rootservices - default {JAZZURL} - can be set using environment variable QUERY_JAZZURL")
    parser.add_argument('-p', '--projectname', default=PROJECT, help='Title of the service provider (project) - can be set using environment variable QUERY_PROJECT')
    parser.add_argument('-d', '--domain', default='CM', help='Domain of the service provider catalog: CM, RM, QM or AM - default CM')
    parser.add_argument('-r', '--resourcetype', required=True, help='Resource type of the query capability, a full URI or prefixed name e.g. oslc_cm:ChangeRequest')
    parser.add_argument('-q', '--query', default=None, help='oslc.where clause (defaults to none which returns all resources)')
    parser.add_argument('-s', '--select', default=None, help='oslc.select - a comma-separated list of properties')
    parser.add_argument('-o', '--orderby', default=None, help='oslc.orderBy e.g. -dcterms:modified')
    parser.add_argument('-x', '--prefix', default=None, help='oslc.prefix declarations for prefixes the server may not know')
    parser.add_argument('-M', '--maxpages', type=int, default=None, help='Stop after retrieving this many pages of results')
    parser.add_argument('-O', '--outputfile', default=None, help='Name of the CSV file to save results to - default prints a summary')
    parser.add_argument('-T', '--turtle', default=None, help='Name of a file to save the merged result graph to as Turtle')
    parser.add_argument('-N', '--noprogressbar', action="store_true", help="Don't show progress bar")

    args = parser.parse_args(inputargs)

    if not _cli.process_common_arguments(args, 'jazzurl'):
        return 0

    if not args.projectname:
        raise ValueError( "You must specify the service provider title with -p or environment variable QUERY_PROJECT" )

    theclient = client.OSLCClient(args.username, args.password, args.configuration, **_cli.transport_arguments(args))
    theclient.use(args.jazzurl, args.projectname, args.domain)

    graph = theclient.query(args.resourcetype, prefix=args.prefix, select=args.select, where=args.query,
                            order_by=args.orderby, max_pages=args.maxpages, progressbar=not args.noprogressbar)

    if args.turtle:
        graph.serialize(destination=args.turtle, format='turtle')
        print( f"Saved {len(graph)} triples to {args.turtle}" )

    resources = theclient.query_resources_from_graph(graph)
    rows, columns = results_to_rows(resources, theclient.prefixes)
    if args.outputfile:
        with open(args.outputfile, "w", newline='', encoding='utf-8') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=columns, restval='')
            writer.writeheader()
            writer.writerows(rows)
        print( f"Saved {len(rows)} results to {args.outputfile}" )
    else:
        for row in rows:
            print( row['$uri'], row.get('dcterms:title', '') )
        print( f"{len(rows)} results" )
    return 0

def main():
    try:
        return do_oslc_query()
    except (exceptions.OSLCError, ValueError) as e:
        logger.error( f"oslcquery failed: {e}" )
        print( f"Error: {e}", file=sys.stderr )
        return 1

if __name__ == '__main__':
    sys.exit(main())
