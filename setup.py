import setuptools

VERSION = '0.1.0'

setup_params = dict(
    name='remember',
    version=VERSION,
    author='Kenneth VanderLinde',
    author_email='kwvanderlinde@gmail.com',
    url='https://github.com/kwvanderlinde/remember',
    keywords='requests cache sqlite',
    packages=setuptools.find_namespace_packages(include=['remember', 'remember.*']),
    include_package_data=True,
    description='A persistent response memory for the requests library',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    install_requires=['requests>=2.30', 'urllib3>=2.0'],
    extras_require={
        'dev': [
            'mockito>=1.2',
            'pytest>=6.0',
            'pytest-cov>=2.7',
            'ddt>=1.2',
        ]
    },
    entry_points={},
    python_requires='>=3.8',
    classifiers=[
        'Development Status :: 2 - Pre-Alpha',
        'Environment :: Web Environment',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: BSD License',
        'Natural Language :: English',
        'Operating System :: OS Independent',

        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3 :: Only',
    ],
)


if __name__ == '__main__':
    setuptools.setup(**setup_params)
