#!/usr/bin/python3
# Copyright (C) 2019-21 Dr. Ralf Schlatterbeck Open Source Consulting.
# Reichergasse 131, A-3411 Weidling.
# Web: http://www.runtux.com Email: office@runtux.com
# ****************************************************************************
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are
# met:
#
# 1. Redistributions of source code must retain the above copyright
#    notice, this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright
#    notice, this list of conditions and the following disclaimer in the
#    documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS
# IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED
# TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A
# PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT
# HOLDER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL,
# SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED
# TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR
# PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING
# NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS
# SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
# ****************************************************************************

import io
import sys
import logging
from datetime         import datetime
from argparse         import ArgumentParser
from rsclib.autosuper import autosuper
from adifparse.adi    import adi_parse, adi_parse_string, adi_dump
from adifparse.adi    import ADIF_Error, ADIF_Syntax_Error, ADI_Parser

logger = logging.getLogger (__name__)

# Well-known header fields and the ADIF_File attribute they go to
header_fields = dict \
    ( adif_ver          = 'adif_version'
    , programid         = 'program_id'
    , programversion    = 'program_version'
    , created_timestamp = 'created_timestamp'
    )

def adif_string (field, record = None) :
    """ Decode the value of an ADI_Field as a string.
        If a type tag is given it must be the string type 'S'.
        record is the 1-based index of the record the field is in.
    """
    prefix = ''
    if record is not None :
        prefix = 'record %d: ' % record
    if field.type is not None and field.type != 'S' :
        raise ADIF_Syntax_Error \
            ( '%sfield "%s": expected string value, but found type "%s"'
            % (prefix, field.name, field.type)
            , record = record
            , field  = field.name
            )
    try :
        return field.value.decode ('utf-8')
    except UnicodeDecodeError :
        raise ADIF_Syntax_Error \
            ( '%sfield "%s": value contained invalid bytes for UTF-8 string'
            % (prefix, field.name)
            , record = record
            , field  = field.name
            )
# end def adif_string

class ADIF_Record (autosuper) :
    """ Represents a QSO record: field values by canonical name.
        Lookup is case-insensitive, fields are also available as
        attributes, e.g. rec.call or rec ['CALL'].
    """

    # Default date format for get_date, see date_cvt below
    date_format = '%Y-%m-%dT%H:%M:%S'

    def __init__ (self, index = None) :
        self.__super.__init__ ()
        self.index = index
        self.dict  = {}
    # end def __init__

    @classmethod
    def date_cvt (cls, d, t = '0000', date_format = None) :
        if not date_format :
            date_format = cls.date_format
        s   = '.'.join ((d, t))
        fmt = '%Y%m%d.%H%M'
        if len (s) > 13 :
            fmt = '%Y%m%d.%H%M%S'
        dt = datetime.strptime (s, fmt)
        return dt.strftime (date_format)
    # end def date_cvt

    def add (self, field) :
        """ Add an ADI_Field, a field may appear only once """
        if field.canon in self.dict :
            raise ADIF_Syntax_Error \
                ( 'record %s: duplicate field "%s"' % (self.index, field.name)
                , record = self.index
                , field  = field.name
                )
        self.dict [field.canon] = adif_string (field, self.index)
    # end def add

    def get (self, name, default = None) :
        return self.dict.get (name.lower (), default)
    # end def get

    def get_date (self, date_fmt = None) :
        """ Return the date of the record computed from QSO_DATE and
            TIME_ON.
        """
        return self.date_cvt \
            (self ['qso_date'], self.get ('time_on', '0000'), date_fmt)
    # end def get_date

    def keys (self) :
        return self.dict.keys ()
    # end def keys

    def items (self) :
        return self.dict.items ()
    # end def items

    def __getitem__ (self, name) :
        return self.dict [name.lower ()]
    # end def __getitem__

    def __getattr__ (self, name) :
        if name.startswith ('_') or name == 'dict' :
            raise AttributeError (name)
        try :
            return self [name]
        except KeyError as msg :
            raise AttributeError (str (msg))
    # end def __getattr__

    def __contains__ (self, name) :
        return name.lower () in self.dict
    # end def __contains__

    def __eq__ (self, other) :
        if isinstance (other, ADIF_Record) :
            other = other.dict
        return self.dict == other
    # end def __eq__

    def __iter__ (self) :
        return iter (self.dict)
    # end def __iter__

    def __len__ (self) :
        return len (self.dict)
    # end def __len__

    def __str__ (self) :
        r = []
        for k in self.dict :
            r.append ('    %s: %s' % (k, self.dict [k]))
        return '\n'.join (r)
    # end def __str__

# end class ADIF_Record

class ADIF_File (autosuper) :
    """ Logical view of an ADIF file.
        Header metadata is available as adif_version, program_id,
        program_version and created_timestamp. Header fields not known
        here are kept undecoded in other_header_fields.
    """

    def __init__ (self, label) :
        self.__super.__init__ ()
        self.label               = label
        self.adif_version        = None
        self.program_id          = None
        self.program_version     = None
        self.created_timestamp   = None
        self.header_text         = None
        self.other_header_fields = []
        self.records             = []
        self.by_call             = {}
    # end def __init__

    def append (self, record) :
        self.records.append (record)
        if 'call' in record :
            self.by_call.setdefault (record ['call'], []).append (record)
    # end def append

    def __iter__ (self) :
        return iter (self.records)
    # end def __iter__

    def __len__ (self) :
        return len (self.records)
    # end def __len__

    def __str__ (self) :
        return adif_dump (self, all_records = True)
    # end def __str__

# end class ADIF_File

def adif_interpret (label, adi_file) :
    """ Convert the physical ADI_File to an ADIF_File """
    adif = ADIF_File (label)
    if adi_file.header is not None :
        adif.header_text = adi_file.header.text.decode ('ascii')
        for field in adi_file.header.fields :
            if field.canon in header_fields :
                setattr (adif, header_fields [field.canon], adif_string (field))
            else :
                logger.debug \
                    ('%s: unknown header field "%s"', label, field.name)
                adif.other_header_fields.append (field)
    for n, rec in enumerate (adi_file.records) :
        record = ADIF_Record (n + 1)
        for field in rec.fields :
            record.add (field)
        adif.append (record)
    logger.debug ('%s: %d records', label, len (adif.records))
    return adif
# end def adif_interpret

def adif_parse (label, fd, **kw) :
    """ Parse ADI from byte stream fd.
        The label identifies the source, e.g. a filename. Keyword
        arguments are passed to the ADI_Parser.
    """
    return adif_interpret (label, adi_parse (fd, **kw))
# end def adif_parse

def adif_parse_string (label, s, **kw) :
    return adif_interpret (label, adi_parse_string (s, **kw))
# end def adif_parse_string

def adif_dump (adif, all_records = False) :
    """ Human readable rendering of the ADIF_File.
        Unless all_records is given only the first record is shown.
    """
    r = ['%s:' % adif.label]
    for k in header_fields.values () :
        v = getattr (adif, k)
        if v is not None :
            r.append ('%18s: %s' % (k, v))
    for f in adif.other_header_fields :
        r.append ('%18s: %s' % (f.canon, f.value.decode ('utf-8', 'replace')))
    r.append ('Got %s records' % len (adif.records))
    records = adif.records
    if not all_records :
        records = records [:1]
    for rec in records :
        r.append ('record %s:' % rec.index)
        r.append (str (rec))
    return '\n'.join (r)
# end def adif_dump

def dump_stream (args, label, f) :
    if args.physical :
        return adi_dump (adi_parse (f, max_fieldlen = args.max_fieldlen))
    adif = adif_parse (label, f, max_fieldlen = args.max_fieldlen)
    return adif_dump (adif, all_records = args.all)
# end def dump_stream

def main (argv = None) :
    cmd = ArgumentParser ()
    cmd.add_argument \
        ( "adif"
        , help    = "ADIF file to dump, default is standard input"
        , nargs   = '?'
        )
    cmd.add_argument \
        ( "-a", "--all"
        , help    = "Dump all records, not just the first"
        , action  = 'store_true'
        )
    cmd.add_argument \
        ( "-m", "--max-fieldlen"
        , help    = "Maximum length of a field value, default=%(default)s"
        , type    = int
        , default = ADI_Parser.max_fieldlen
        )
    cmd.add_argument \
        ( "-p", "--physical"
        , help    = "Dump the physical structure of the file"
        , action  = 'store_true'
        )
    cmd.add_argument \
        ( "-v", "--verbose"
        , help    = "Verbose (debug) logging"
        , action  = 'store_true'
        )
    args = cmd.parse_args (argv)
    logging.basicConfig \
        (level = logging.DEBUG if args.verbose else logging.WARNING)
    label = args.adif or '<stdin>'
    try :
        if args.adif :
            with io.open (args.adif, 'rb') as f :
                result = dump_stream (args, label, f)
        else :
            result = dump_stream (args, label, sys.stdin.buffer)
    except (ADIF_Error, OSError) as err :
        print ('%s: %s: %s' % (cmd.prog, label, err), file = sys.stderr)
        return 1
    print (result)
    return 0
# end def main

if __name__ == '__main__' :
    sys.exit (main ())
