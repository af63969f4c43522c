# fsdbg - inspect and verify boot archive images
#
# This file is part of fsdbg.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
# SPDX-License-Identifier: GPL-3.0-only

import logging

import rich.console
import rich.logging

log = logging.getLogger('fsdbg')
log.addHandler(logging.NullHandler())


def setup_logging(verbose=False):
    '''Send log records to stderr through rich. Debug records are only
    shown when verbose is set.'''
    handler = rich.logging.RichHandler(console=rich.console.Console(stderr=True),
                                       show_path=False)
    handler.setFormatter(logging.Formatter('%(message)s'))
    log.handlers = [handler]
    if verbose:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.WARNING)
    return log
