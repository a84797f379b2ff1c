
from setuptools import setup

setup(
    # Package Metadata
    name         = 'abcodec',
    description  = 'ActionScript Byte Code (ABC) decoder/encoder',
    version      = '0.5',
    license      = 'MPL 1.1',
    packages     = ['abcodec', 'abcodec.bitstream', 'abcodec.avm2'],
    python_requires  = '>=3.6',
    install_requires = ['zope.interface', 'zope.component'],
    extras_require   = {'test': ['pytest']},
)
